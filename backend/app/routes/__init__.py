# Routes package init
"""
Inceptra Backend — API Routes Package
=======================================

Route Inventory:
    - article.py:    POST /api/article
    - image.py:      POST /api/image
    - bg_remove.py:  POST /api/bg-remove       (multipart, field `image`)
    - resume.py:     POST /api/resume          (multipart, field `file`)
    - history.py:    GET  /api/history         (cursor pagination)
                     GET  /api/history/usage   (today's quota usage)
    - health.py:     GET  /, /api/health, /health

Routes stay thin: they parse the request, resolve the user id and the
store, and hand everything else to the generation service.
"""

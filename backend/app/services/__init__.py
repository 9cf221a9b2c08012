# Services package init
"""
Inceptra Backend — Services Layer
===================================

Service Inventory:
    - candidates:          per-feature provider candidate lists and limits
    - quota_service:       QuotaLedger, daily per-feature admission
    - fallback_executor:   ordered candidate walk with per-attempt timeouts
    - normalizer:          raw provider payloads → canonical text / base64
    - generation_recorder: history append and pagination
    - generation_store:    SQLAlchemy persistence behind all of the above
    - file_service:        upload validation (images, PDF resumes)
    - gemini_service / huggingface_service: InferenceProvider adapters
    - generation_service:  composes the pieces for the routes

Services hold no per-request state; the GenerationStore is passed in on
every call.
"""

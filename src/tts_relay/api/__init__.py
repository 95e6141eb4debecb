"""
HTTP API Layer.

    - routes.py: FastAPI router (process, status, health, voices, metrics)
    - schemas.py: Pydantic request/response models (camelCase on the wire)
    - dependencies.py: Settings and service providers for Depends()
"""

"""
Core Application - Infrastructure & Base Classes

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic-locking version counter

Services (import from core.services):
    - BaseService: Logging, transactions and post-commit secondary effects
    - ServiceResult: Standard result wrapper (success/failure/no-op)

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError
    - AuthorizationError (PermissionDeniedError)
    - StateConflictError (ConflictError)
    - ExternalGatewayError (ExternalServiceError)

Views (import from core.views):
    - health_check: Liveness/readiness probe
    - application_error_response: Domain exception to DRF Response
"""

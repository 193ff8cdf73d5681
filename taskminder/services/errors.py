class ServiceError(Exception):
    """Base exception for service-layer failures the HTTP layer reports"""
    pass


class NotFoundError(ServiceError):
    pass


class RuleConflictError(ServiceError):
    """A rule with the same type and parameters already exists"""
    pass

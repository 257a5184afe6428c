from functools import wraps
from flask_jwt_extended import verify_jwt_in_request, get_jwt, get_jwt_identity
from fmc.services.policy import caller_from_claims


def current_caller():
    verify_jwt_in_request()
    return caller_from_claims(get_jwt_identity(), get_jwt())


def require_caller(fn):
    """Verify the bearer token and pass the resolved Caller to the view as ``caller``."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        kwargs['caller'] = current_caller()
        return fn(*args, **kwargs)
    return wrapper

"""Extensions of the competition backend"""
from flask_wtf.csrf import CSRFProtect  # type:ignore
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from . import config

csrf_protector = CSRFProtect()
limiter = Limiter(key_func=get_remote_address, storage_uri=config.rate_limit_storage_uri)

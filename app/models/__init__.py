# app/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from app.models.user import User  # noqa: F401
from app.models.gift import Gift  # noqa: F401
from app.models.event import Event, event_gifts  # noqa: F401
from app.models.guest import Guest  # noqa: F401

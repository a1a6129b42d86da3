# Import all models so Base.metadata is populated for create_all.
from app.models.user import User  # noqa: F401
from app.models.session import Session  # noqa: F401
from app.models.consent import Consent  # noqa: F401
from app.models.audit import ConsentAuditLog  # noqa: F401
from app.models.document import Document  # noqa: F401

# Import SQLAlchemy models so they register on Base.metadata
from courier_dispatch.models.audit_log import AuditLog  # noqa: F401
from courier_dispatch.models.courier import Courier, CourierAccountStatus  # noqa: F401
from courier_dispatch.models.courier_rating import CourierRating  # noqa: F401
from courier_dispatch.models.order import Order, OrderStatus  # noqa: F401
from courier_dispatch.models.settlement import Settlement, SettlementStatus  # noqa: F401

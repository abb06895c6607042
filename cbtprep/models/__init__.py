from cbtprep.models.user import User
from cbtprep.models.payment import Payment
from cbtprep.models.badge import UserBadge
from cbtprep.models.session import CbtSession, SessionAnswer

__all__ = ["User", "Payment", "UserBadge", "CbtSession", "SessionAnswer"]

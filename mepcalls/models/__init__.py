from mepcalls.models.user import Role, User
from mepcalls.models.call_log import CallLog
from mepcalls.models.excluded_contact import ExcludedContact
from mepcalls.models.system_config import SYNC_INTERVAL_KEY, SystemConfig

__all__ = ["Role", "User", "CallLog", "ExcludedContact", "SystemConfig", "SYNC_INTERVAL_KEY"]

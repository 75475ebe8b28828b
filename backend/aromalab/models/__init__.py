
from .materials import RawMaterial
from .formulas import Formula, FormulaIngredient
from .orders import ManufacturingOrder, ORDER_STATUSES, TERMINAL_ORDER_STATUSES
from .activity import ActivityLog, ACTIVITY_ENTITIES
from .auth import User, SessionToken, USER_ROLES

__all__ = [
    'RawMaterial',
    'Formula', 'FormulaIngredient',
    'ManufacturingOrder', 'ORDER_STATUSES', 'TERMINAL_ORDER_STATUSES',
    'ActivityLog', 'ACTIVITY_ENTITIES',
    'User', 'SessionToken', 'USER_ROLES',
]

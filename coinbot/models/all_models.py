# Import all models so Base.metadata.create_all() can see them.

from coinbot.models.user import User  # noqa: F401
from coinbot.models.redeem import RedeemCode, Redemption  # noqa: F401
from coinbot.models.game import GameEvent  # noqa: F401

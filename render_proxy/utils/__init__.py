import random
from typing import Optional, Sequence

from render_proxy.vars import USER_AGENTS


def random_user_agent(pool: Optional[Sequence[str]] = None) -> str:
    """Pick a user agent from the rotation pool."""
    return random.choice(list(pool or USER_AGENTS))

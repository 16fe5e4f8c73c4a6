from .roster import router as roster_router
from .titles import router as titles_router

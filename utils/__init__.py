import shutil
from typing import Iterable, Optional

def which_first(candidates: Iterable[str], preferred: Optional[str] = None) -> Optional[str]:
    """
    Returns the first executable found on PATH.
    A ``preferred`` name wins when it is installed; otherwise discovery
    falls through to ``candidates``.
    """
    if preferred and shutil.which(preferred):
        return preferred
    for name in candidates:
        if shutil.which(name):
            return name
    return None

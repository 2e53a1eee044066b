from typing import Any, Dict, Optional

import httpx


def safe_json(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    """Decoded JSON body if it is an object, else None (bad JSON, list, scalar...)."""
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None

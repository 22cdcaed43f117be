from typing import Any, Dict, Optional

from collab_messaging.config import get_settings


def resolve_avatar_url(photo: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Turn a stored upload path into a URL the browser can load."""
    if not photo:
        return None
    if photo.startswith("http"):
        return photo
    base = (base_url or get_settings().uploads_base_url).rstrip("/")
    return f"{base}/{photo.lstrip('/')}"


def display_name(user: Dict[str, Any]) -> str:
    parts = [user.get("first_name") or "", user.get("last_name") or ""]
    return " ".join(p for p in parts if p).strip()


def user_summary(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "name": display_name(user),
        "role": user.get("role"),
        "avatar_url": resolve_avatar_url(user.get("profile_photo")),
    }

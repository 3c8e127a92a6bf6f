from flask import current_app


def build_scan_url(server_url: str) -> str:
    base_url = current_app.config.get("BASE_URL", "http://127.0.0.1:5000")
    return f"{base_url}/scan/{server_url}"


def serialize_dynamic_url(entry) -> dict:
    return {
        "server_url": entry.server_url,
        "scan_url": build_scan_url(entry.server_url),
        "target_url": entry.target_url,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
    }

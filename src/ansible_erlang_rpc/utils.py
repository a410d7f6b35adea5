import json
from typing import Mapping

# =========================
# Envelope
# =========================


def success_envelope(msg: str) -> str:
    """JSON line reporting a completed call to Ansible."""
    return json.dumps({"changed": True, "msg": msg}, ensure_ascii=False)


def failure_envelope(msg: str) -> str:
    """JSON line reporting a failed call to Ansible."""
    return json.dumps({"failed": True, "msg": msg}, ensure_ascii=False)


# =========================
# Safe logging
# =========================


def get_sanitized_env(env_dict: Mapping[str, str]) -> dict:
    """
    Returns a copy of the environment dictionary with sensitive values masked.
    Useful for safe logging.
    """
    # Keywords that strongly suggest a field is sensitive
    SENSITIVE_KEYWORDS = [
        "COOKIE",
        "TOKEN",
        "SECRET",
        "KEY",
        "PASSWORD",
        "PASS",
        "PWD",
        "AUTH",
    ]

    sanitized = dict(env_dict)

    for key, value in sanitized.items():
        if value == "******" or not value:
            continue

        upper_key = key.upper()
        if any(keyword in upper_key for keyword in SENSITIVE_KEYWORDS):
            sanitized[key] = "******"

    return sanitized

"""
Logging setup.

One stream handler on the root logger with either a human readable or a
JSON formatter. Both accept dict messages.
"""

import json
import logging
import time
from typing import Any, Dict


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "level": record.levelname,
            "time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "logger": record.name,
        }
        msg = record.msg
        if isinstance(msg, dict):
            payload = {**base, **msg}
        else:
            payload = {**base, "message": record.getMessage()}
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class PlainFormatter(logging.Formatter):
    # ts | LEVEL | logger: message, dicts flattened to key=value
    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        lvl = record.levelname.ljust(5)
        base = f"{ts} | {lvl} | {record.name}:"
        msg = record.msg
        if isinstance(msg, dict):
            parts = []
            for k, v in msg.items():
                if isinstance(v, (dict, list)):
                    v_str = json.dumps(v, ensure_ascii=False, default=str)
                else:
                    v_str = str(v)
                if " " in v_str or ";" in v_str:
                    v_str = f'"{v_str}"'
                parts.append(f"{k}={v_str}")
            text = " ".join(parts)
        else:
            text = record.getMessage()
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return f"{base} {text}".rstrip()


def configure_logging(level: str = "WARNING", fmt: str = "plain") -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Log level name
        fmt: "plain" or "json"
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler()
    if fmt.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(PlainFormatter())

    root.handlers.clear()
    root.addHandler(handler)

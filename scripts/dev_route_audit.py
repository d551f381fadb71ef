from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import create_app  # noqa: E402
from app.core.config import Config  # noqa: E402

PUBLIC_ENDPOINTS = {"home", "auth.login_post", "static"}
AUDITED_METHODS = ("GET", "POST", "PATCH", "DELETE")
ARG_RE = re.compile(r"<(?:(\w+):)?(\w+)>")


class AuditConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_BINDS = {"siga": "sqlite://"}
    LOG_LEVEL = "ERROR"


@dataclass
class AuditIssue:
    code: str
    endpoint: str
    rule: str
    message: str


def sample_path(rule: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        converter = match.group(1) or "string"
        return "1" if converter == "int" else "iniciar"

    return ARG_RE.sub(_replace, rule)


def audit_routes() -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    app = create_app(AuditConfig)
    client = app.test_client()

    for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
        if rule.endpoint in PUBLIC_ENDPOINTS:
            continue
        path = sample_path(rule.rule)
        for method in AUDITED_METHODS:
            if method not in rule.methods:
                continue
            response = client.open(path, method=method, json={})
            if response.status_code != 401:
                issues.append(
                    AuditIssue(
                        code="API001",
                        endpoint=rule.endpoint,
                        rule=f"{method} {rule.rule}",
                        message=f"Reachable without login (status {response.status_code})",
                    )
                )
            elif not response.is_json:
                issues.append(
                    AuditIssue(
                        code="API002",
                        endpoint=rule.endpoint,
                        rule=f"{method} {rule.rule}",
                        message="Error response is not JSON",
                    )
                )

    issues.sort(key=lambda x: (x.rule, x.code))
    return issues


def main() -> int:
    issues = audit_routes()
    if not issues:
        print("Route audit passed: every private route requires login.")
        return 0

    print("Route audit found issues:")
    for item in issues:
        print(f"- {item.code} {item.rule} [{item.endpoint}] {item.message}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Attack payload corpora used by security scenarios.

Each corpus declares the content types it is meaningful for; ``None``
means any content type (including parameters sent in the URL).
"""

from pydantic import BaseModel, ConfigDict

XML_CONTENT_TYPES = ("application/xml", "text/xml")


class AttackCorpus(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    strategy: str
    payloads: tuple[str, ...]
    # substrings that must not come back unescaped in the response
    markers: tuple[str, ...] = ()
    content_types: tuple[str, ...] | None = None

    def applies_to(self, content_type: str | None) -> bool:
        if self.content_types is None:
            return True
        return content_type is not None and any(ct in content_type for ct in self.content_types)


SQL_INJECTION = AttackCorpus(
    name="SQL injection",
    strategy="security_sql_injection",
    payloads=(
        "'; DROP TABLE users; --",
        "' OR '1'='1",
        "admin'--",
        "1' UNION SELECT * FROM sensitive_table--",
    ),
    markers=("SQL syntax", "ORA-", "SQLSTATE", "sqlite3.", "mysql_fetch"),
)

NOSQL_INJECTION = AttackCorpus(
    name="NoSQL injection",
    strategy="security_nosql_injection",
    payloads=(
        '{"$gt": ""}',
        '{"$ne": null}',
        "'; return true; var x='",
    ),
    markers=("MongoError", "$where"),
)

XSS = AttackCorpus(
    name="XSS",
    strategy="security_xss",
    payloads=(
        "<script>alert('XSS')</script>",
        "<img src=x onerror=alert('XSS')>",
        "javascript:alert('XSS')",
        "<svg onload=alert('XSS')>",
        "\"><script>alert('XSS')</script>",
    ),
    markers=("<script>", "onerror=", "onload="),
)

COMMAND_INJECTION = AttackCorpus(
    name="Command injection",
    strategy="security_command_injection",
    payloads=(
        "; cat /etc/passwd",
        "| whoami",
        "$(id)",
        "`sleep 5`",
    ),
    markers=("root:x:0:0", "uid="),
)

PATH_TRAVERSAL = AttackCorpus(
    name="Path traversal",
    strategy="security_path_traversal",
    payloads=(
        "../../../etc/passwd",
        "..\\..\\..\\windows\\win.ini",
        "%2e%2e%2f%2e%2e%2fetc%2fpasswd",
    ),
    markers=("root:x:0:0", "[extensions]"),
)

XXE = AttackCorpus(
    name="XXE",
    strategy="security_xxe",
    payloads=(
        '<?xml version="1.0"?><!DOCTYPE foo [<!ENTITY xxe SYSTEM "file:///etc/passwd">]><foo>&xxe;</foo>',
        '<?xml version="1.0"?><!DOCTYPE foo [<!ENTITY xxe SYSTEM "http://169.254.169.254/latest/meta-data/">]><foo>&xxe;</foo>',
    ),
    markers=("root:x:0:0", "ami-id"),
    content_types=XML_CONTENT_TYPES,
)

# field corpora replace string values; body corpora are sent as the raw body
FIELD_CORPORA = (SQL_INJECTION, NOSQL_INJECTION, XSS, COMMAND_INJECTION, PATH_TRAVERSAL)
BODY_CORPORA = (XXE,)

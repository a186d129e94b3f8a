# contract_tester/constants.py
# Shared names and placeholder values used across planning, dispatch and reporting

HTTP_METHODS: tuple[str, ...] = (
    "GET", "PUT", "POST", "DELETE", "OPTIONS", "HEAD", "PATCH", "TRACE",
)

PARAMETER_LOCATIONS: tuple[str, ...] = ("path", "query", "header", "cookie")

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
TEXT_CONTENT_TYPE = "text/plain"

# Preferred order when an operation declares several media types
CONTENT_TYPE_PREFERENCE: tuple[str, ...] = (
    JSON_CONTENT_TYPE,
    FORM_CONTENT_TYPE,
    TEXT_CONTENT_TYPE,
)

# Formats under which a number/integer schema accepts a numeric string
NUMERIC_STRING_FORMATS: frozenset[str] = frozenset({
    "decimal", "int64-string", "numeric-string",
})

PLACEHOLDER_STRING = "string"

FORMAT_PLACEHOLDERS: dict[str, str] = {
    "date-time": "1970-01-01T00:00:00Z",
    "date": "1970-01-01",
    "time": "00:00:00Z",
    "uuid": "00000000-0000-0000-0000-000000000000",
    "email": "user@example.com",
    "uri": "https://example.com",
    "url": "https://example.com",
    "hostname": "example.com",
    "ipv4": "127.0.0.1",
    "ipv6": "::1",
    "byte": "c3RyaW5n",
    "password": "password",
    "decimal": "0",
    "int64-string": "0",
    "numeric-string": "0",
}

# Fallback candidates tried against a `pattern` when no format placeholder fits
PATTERN_CANDIDATES: tuple[str, ...] = (
    PLACEHOLDER_STRING, "a", "A", "0", "1", "a1", "A1", "abc", "ABC", "123",
    "a-b", "a_b", "a.b", "aB1", "user@example.com", "https://example.com",
    "1970-01-01", "1970-01-01T00:00:00Z", "00000000-0000-0000-0000-000000000000",
    "",
)

DEFAULT_USER_AGENT = "contract-tester/0.1"

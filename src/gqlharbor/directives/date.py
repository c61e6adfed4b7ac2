"""`@formattableDate`: renders a field's timestamp in a requested zone, locale and format.

    type Post {
      published: String @formattableDate(format: "DDD", locale: "en")
    }

The directive adds `format`, `timezone` and `locale` arguments to the field so a
caller can override the directive defaults per request:

    { post { published(format: "DDD", locale: "fr", timezone: "Europe/Paris") } }

Format strings use Luxon-style tokens: `D`/`DD`/`DDD`/`DDDD` localized dates,
`t`..`tttt` localized times, `T`..`TTTT` 24-hour times, `f`..`ffff` and
`F`..`FFFF` localized date-times. Other letters follow CLDR date patterns
(`yyyy-MM-dd HH:mm`), and text inside single quotes is copied as-is. Without a
format the value is rendered as an ISO-8601 instant with millisecond precision.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from babel import Locale, UnknownLocaleError
from babel.dates import format_date, format_datetime, format_time, get_datetime_format
from graphql import DirectiveLocation, GraphQLArgument, GraphQLString

from gqlharbor.directives.registry import DirectiveDefinition, FieldDescriptor, call_resolver
from gqlharbor.errors import DirectiveArgumentError, SchemaConfigurationError

DATE_DIRECTIVE_NAME = "formattableDate"

DATE_TYPE_DEFS = f"""
directive @{DATE_DIRECTIVE_NAME}(
    "Luxon-style format tokens. Without a format the value is rendered as an ISO-8601 instant."
    format: String
    "IANA time zone the value is converted to."
    timezone: String = "utc"
    "Locale used for month and weekday names."
    locale: String = "en"
) on FIELD_DEFINITION
"""

DATE_ARGUMENTS = {
    "format": "Format tokens overriding the field default, e.g. \"DDD\" or \"yyyy-MM-dd HH:mm\".",
    "timezone": "IANA time zone overriding the field default, e.g. \"Europe/Paris\".",
    "locale": "Locale overriding the field default, e.g. \"fr\" or \"en-US\".",
}

UTC_ALIASES = frozenset({"utc", "z"})

# Luxon tokens whose CLDR spelling differs
TOKEN_TRANSLATIONS = {
    "o": "D",
    "ooo": "DDD",
    "W": "w",
    "WW": "ww",
    "kk": "YY",
    "kkkk": "YYYY",
    "u": "SSS",
    "uu": "SS",
    "uuu": "S",
    "Z": "x",
    "ZZ": "xxx",
    "ZZZ": "xx",
    "ZZZZ": "z",
    "ZZZZZ": "zzzz",
}

STYLES = ("short", "medium", "long", "full")
CHECK_INSTANT = datetime(2000, 1, 31, 10, 27, tzinfo=UTC)


def resolve_zone(name: str) -> tzinfo:
    if name.strip().lower() in UTC_ALIASES:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise DirectiveArgumentError(f"Unknown time zone '{name}'") from e


def resolve_locale(identifier: str) -> Locale:
    try:
        return Locale.parse(identifier.replace("-", "_"))
    except (UnknownLocaleError, ValueError, TypeError) as e:
        raise DirectiveArgumentError(f"Unknown locale '{identifier}'") from e


def parse_instant(raw: Any) -> datetime | None:
    """
    Interpret a raw field value as an instant.

    Accepts datetimes (naive ones are UTC), dates, epoch milliseconds and
    ISO-8601 strings. Anything else, including None, yields None.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        instant = raw
    elif isinstance(raw, date):
        instant = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, int | float):
        try:
            instant = datetime.fromtimestamp(raw / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            instant = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant


def to_iso(instant: datetime) -> str:
    text = instant.isoformat(timespec="milliseconds")
    if instant.tzinfo is UTC and text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _date_time(instant: datetime, date_style: str, time_style: str, locale: Locale) -> str:
    pattern = get_datetime_format(date_style, locale=locale).replace("'", "")
    return pattern.replace("{0}", format_time(instant, time_style, tzinfo=instant.tzinfo, locale=locale)).replace(
        "{1}", format_date(instant, date_style, locale=locale)
    )


def _macro_renderers() -> dict[str, Callable[[datetime, Locale], str]]:
    renderers: dict[str, Callable[[datetime, Locale], str]] = {}
    for width, style in enumerate(STYLES, start=1):
        renderers["D" * width] = lambda dt, loc, s=style: format_date(dt, s, locale=loc)
        renderers["t" * width] = lambda dt, loc, s=style: format_time(dt, s, tzinfo=dt.tzinfo, locale=loc)
        renderers["f" * width] = lambda dt, loc, s=style: _date_time(dt, s, s, loc)
        renderers["F" * width] = lambda dt, loc, s=style: _date_time(dt, s, "medium" if s == "short" else s, loc)
    for width, pattern in enumerate(("HH:mm", "HH:mm:ss", "HH:mm:ss z", "HH:mm:ss zzzz"), start=1):
        renderers["T" * width] = lambda dt, loc, p=pattern: format_datetime(dt, p, tzinfo=dt.tzinfo, locale=loc)
    renderers["X"] = lambda dt, loc: str(int(dt.timestamp()))
    renderers["x"] = lambda dt, loc: str(int(dt.timestamp() * 1000))
    renderers["z"] = lambda dt, loc: getattr(dt.tzinfo, "key", None) or dt.tzname() or "UTC"
    return renderers


MACRO_RENDERERS = _macro_renderers()


def tokenize(format_: str) -> list[tuple[bool, str]]:
    """Split a format string into (is_literal, text) pieces."""
    pieces: list[tuple[bool, str]] = []
    i = 0
    while i < len(format_):
        char = format_[i]
        if char == "'":
            end = format_.find("'", i + 1)
            if end == i + 1:
                pieces.append((True, "'"))
                i += 2
                continue
            if end == -1:
                end = len(format_)
            pieces.append((True, format_[i + 1 : end]))
            i = end + 1
        elif char.isascii() and char.isalpha():
            j = i
            while j < len(format_) and format_[j] == char:
                j += 1
            pieces.append((False, format_[i:j]))
            i = j
        else:
            pieces.append((True, char))
            i += 1
    return pieces


def render(instant: datetime, format_: str, locale: Locale) -> str:
    """Render an instant (already converted to its target zone) with format tokens."""
    output: list[str] = []
    for is_literal, text in tokenize(format_):
        if is_literal:
            output.append(text)
            continue
        renderer = MACRO_RENDERERS.get(text)
        try:
            if renderer is not None:
                output.append(renderer(instant, locale))
            else:
                pattern = TOKEN_TRANSLATIONS.get(text, text)
                output.append(format_datetime(instant, pattern, tzinfo=instant.tzinfo, locale=locale))
        except (KeyError, ValueError) as e:
            raise DirectiveArgumentError(f"Unsupported format token '{text}'") from e
    return "".join(output)


def format_instant(
    instant: datetime,
    format_: str | None = None,
    timezone: str = "utc",
    locale: str = "en",
) -> str:
    """
    Convert an instant to `timezone` and render it.

    Args:
        instant: Timezone-aware instant
        format_: Format tokens, or None for the canonical ISO-8601 rendering
        timezone: IANA zone name or "utc"
        locale: Locale identifier such as "en", "fr" or "en-US"

    Returns:
        The formatted string

    Raises:
        DirectiveArgumentError: If the zone, locale or a format token is invalid.
    """
    local = instant.astimezone(resolve_zone(timezone))
    resolved_locale = resolve_locale(locale)
    if not format_:
        return to_iso(local)
    return render(local, format_, resolved_locale)


def visit_field_definition(field: FieldDescriptor, directive_args: dict[str, Any]) -> None:
    default_format: str | None = directive_args.get("format")
    default_timezone: str = directive_args.get("timezone") or "utc"
    default_locale: str = directive_args.get("locale") or "en"

    try:
        format_instant(CHECK_INSTANT, default_format, default_timezone, default_locale)
    except DirectiveArgumentError as e:
        raise SchemaConfigurationError(f"Invalid @{DATE_DIRECTIVE_NAME} on {field.coordinate}: {e}") from e

    resolve = field.resolve
    if resolve is None:
        raise SchemaConfigurationError(f"@{DATE_DIRECTIVE_NAME} on {field.coordinate} has no resolver to wrap")

    for name, description in DATE_ARGUMENTS.items():
        if name in field.args:
            raise SchemaConfigurationError(
                f"@{DATE_DIRECTIVE_NAME} on {field.coordinate} would shadow the existing argument '{name}'"
            )
        field.args[name] = GraphQLArgument(GraphQLString, description=description)

    async def resolve_formatted_date(obj: Any, info: Any, **kwargs: Any) -> str | None:
        format_ = kwargs.pop("format", None) or default_format
        timezone = kwargs.pop("timezone", None) or default_timezone
        locale = kwargs.pop("locale", None) or default_locale

        instant = parse_instant(await call_resolver(resolve, obj, info, **kwargs))
        if instant is None:
            return None
        return format_instant(instant, format_, timezone, locale)

    field.resolve = resolve_formatted_date
    field.type = GraphQLString


DATE_DIRECTIVE = DirectiveDefinition(
    name=DATE_DIRECTIVE_NAME,
    type_defs=DATE_TYPE_DEFS,
    visitors={DirectiveLocation.FIELD_DEFINITION: visit_field_definition},
)

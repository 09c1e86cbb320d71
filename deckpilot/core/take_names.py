"""Take-name template engine.

Pure functions only: the same recorder, show settings and clock reading
always produce the same name.
"""

import re
from datetime import datetime
from typing import List, Optional, Union

from .models import DateFormat, Recorder, TEMPLATE_CUSTOM, TEMPLATE_SHOW, TEMPLATE_TAKE

FALLBACK_TAKE_NAME = "TAKE"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def sanitize_name(name: str) -> str:
    """Replace every non-alphanumeric character with ``_``.

    >>> sanitize_name("HYPER-41")
    'HYPER_41'
    """
    return _UNSAFE_CHARS.sub("_", name or "")


def format_date(fmt: Union[DateFormat, str, None], now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    fmt = DateFormat.parse(fmt)

    ymd = now.strftime("%Y%m%d")
    hm = now.strftime("%H%M")

    if fmt is DateFormat.MMDDYYYY:
        return now.strftime("%m%d%Y")
    if fmt is DateFormat.DDMMYYYY:
        return now.strftime("%d%m%Y")
    if fmt is DateFormat.YYYY_MM_DD:
        return now.strftime("%Y-%m-%d")
    if fmt is DateFormat.YYYYMMDDHHMM:
        return ymd + hm
    if fmt is DateFormat.YYYYMMDD_DASH_HHMM:
        return f"{ymd}-{hm}"
    if fmt is DateFormat.YYYYMMDD_HHMM:
        return f"{ymd}_{hm}"
    if fmt is DateFormat.YYYY_MM_DD_HHMM:
        return f"{now.strftime('%Y-%m-%d')}-{hm}"
    if fmt is DateFormat.HHMMSS:
        return now.strftime("%H%M%S")
    return ymd


def _enabled(flag: Optional[bool]) -> bool:
    return flag is not False


def generate_take_name(
    recorder: Recorder,
    show_name: str,
    date_format: Union[DateFormat, str, None],
    now: Optional[datetime] = None,
) -> str:
    """Compose the take name for ``recorder`` from its selected template.

    Show:   show name, date
    Take:   show name, date, ``S<NN>``, custom text, ``T<NN>``
    Custom: custom text

    A part is used when its toggle is not explicitly ``False`` and its value
    is non-empty. Parts are joined with ``_``; an empty result is ``TAKE``.
    """
    template = recorder.selected_template or TEMPLATE_SHOW
    parts: List[str] = []

    if template in (TEMPLATE_SHOW, TEMPLATE_TAKE):
        if _enabled(recorder.include_show) and show_name:
            parts.append(show_name)
        if _enabled(recorder.include_date) and date_format:
            parts.append(format_date(date_format, now))

    if template == TEMPLATE_TAKE:
        if _enabled(recorder.include_shot_take):
            parts.append(f"S{recorder.shot_number:02d}")
        if _enabled(recorder.include_custom) and recorder.custom_text:
            parts.append(recorder.custom_text)
        if _enabled(recorder.include_shot_take):
            parts.append(f"T{recorder.take_number:02d}")
    elif template == TEMPLATE_CUSTOM:
        if _enabled(recorder.include_custom) and recorder.custom_text:
            parts.append(recorder.custom_text)

    return "_".join(parts) or FALLBACK_TAKE_NAME

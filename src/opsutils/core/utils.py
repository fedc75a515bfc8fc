"""Small helpers shared by CLI tools: JSON formatting, files and prompts."""

import json
import os
import shutil
from collections.abc import Callable
from datetime import datetime
from typing import Any, TextIO

from opsutils.foundation.logger import FATAL, error_report

from .params import ObjParams

USAGE_WARNING = (
    "WARNING: this tool will run destructive tasks on the current Cluster.\n"
    "Please ensure you are authenticated to the correct cluster before proceeding"
)


def indent_json(data: Any, offset: int = 0, indent: int = 2) -> str:
    """Return `data` as indented JSON.

    Every line after the first is prefixed with `offset * indent` spaces so
    the output can be embedded in already-indented text.

    Args:
        data: JSON-serializable value.
        offset: Indentation levels to prefix.
        indent: Spaces per indentation level.

    Returns:
        The JSON text, or the error text if `data` is not serializable.
    """
    try:
        text = json.dumps(data, indent=indent)
    except (TypeError, ValueError) as e:
        return str(e)
    prefix = " " * (offset * indent)
    if not prefix:
        return text
    first, *rest = text.split("\n")
    return "\n".join([first, *(prefix + line for line in rest)])


def exists(path: str | os.PathLike[str]) -> bool:
    """Return whether `path` exists.

    Raises:
        OSError: Any error other than the path not existing.
    """
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    return True


def validate_timestamp(value: str, fmt: str) -> None:
    """Check that `value` parses with the `datetime.strptime` format `fmt`.

    Raises:
        ValueError: If `value` does not match `fmt`.
    """
    datetime.strptime(value, fmt)


def string_to_file(handle: TextIO, text: str) -> None:
    """Write `text` to the open file `handle`.

    Raises:
        OpsUtilsError: If the write fails; the OSError is chained.
    """
    try:
        handle.write(text)
    except OSError as e:
        name = getattr(handle, "name", "<unknown>")
        raise error_report(f"failed to write to {name} file", e) from e


def copy_file(src: str | os.PathLike[str], dst: str | os.PathLike[str]) -> None:
    """Copy the contents of `src` to `dst`, creating or truncating `dst`."""
    shutil.copyfile(src, dst)


def prompt_usage_warning(params: ObjParams, input_func: Callable[[str], str] = input) -> None:
    """Warn that the tool is destructive and ask the user to confirm.

    Returns normally when the answer is `y`; otherwise logs at FATAL and
    exits with status 1.

    Raises:
        SystemExit: The user did not answer `y`.
    """
    print(USAGE_WARNING, file=params.log_out)
    answer = input_func("Continue with restore: y/N \n")
    if answer.strip() != "y":
        params.logger.log(FATAL, "exiting script")
        raise SystemExit(1)

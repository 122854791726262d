"""Render a directory of Jinja2 templates into a workspace directory.

Files named ``*.j2`` or ``*.j2.<ext>`` are rendered and written without the
``.j2`` marker (``values.j2.yaml`` becomes ``values.yaml``). Every other file
is copied verbatim, keeping the directory structure.
"""

import logging
import os
import shutil

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

logger = logging.getLogger(__name__)


class TemplateRenderError(Exception):
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"{path}: {message}")


def is_template(filename: str) -> bool:
    return filename.endswith(".j2") or ".j2." in filename


def rendered_name(filename: str) -> str:
    if filename.endswith(".j2"):
        return filename[: -len(".j2")]
    return filename.replace(".j2.", ".", 1)


def _walk(from_dir):
    for root, _, files in os.walk(from_dir):
        for filename in sorted(files):
            yield os.path.relpath(os.path.join(root, filename), from_dir)


def _render_or_copy(env, from_dir, to_dir, relpath, context) -> str:
    directory, filename = os.path.split(relpath)
    os.makedirs(os.path.join(to_dir, directory), exist_ok=True)
    if not is_template(filename):
        shutil.copy2(os.path.join(from_dir, relpath), os.path.join(to_dir, relpath))
        return relpath
    target = os.path.join(directory, rendered_name(filename))
    # Jinja2 loader names always use forward slashes
    content = env.get_template(relpath.replace(os.sep, "/")).render(**context)
    with open(os.path.join(to_dir, target), "w") as f:
        f.write(content)
    return target


def generate_and_copy_all_files_into_dir(from_dir, to_dir, context: dict) -> list[str]:
    """Render templates and copy the other files of ``from_dir`` into ``to_dir``.

    Returns:
        Paths of the written files, relative to ``to_dir``.

    Raises:
        TemplateRenderError: missing source directory, undefined variable,
            template syntax error, undecodable template or failed write.
    """
    if not os.path.isdir(from_dir):
        raise TemplateRenderError(from_dir, "template directory does not exist")

    env = Environment(
        loader=FileSystemLoader(from_dir),
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    written = []
    for relpath in _walk(from_dir):
        try:
            written.append(_render_or_copy(env, from_dir, to_dir, relpath, context))
        except (TemplateError, OSError, UnicodeError) as e:
            raise TemplateRenderError(os.path.join(from_dir, relpath), str(e)) from e

    logger.debug(f"Rendered {len(written)} file(s) from {from_dir} into {to_dir}")
    return written


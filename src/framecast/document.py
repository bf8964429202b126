"""Build the HTML document and time hook loaded into a render session."""
from __future__ import annotations

import re

from .config import RenderSpec

_FULL_DOCUMENT_PATTERN = re.compile(r"<!doctype|<html", re.IGNORECASE)

_SHELL_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    * {{
      margin: 0;
      padding: 0;
      box-sizing: border-box;
    }}
    body {{
      margin: 0;
      padding: 0;
      overflow: hidden;
      background: {background};
    }}
    canvas {{
      display: block;
    }}
  </style>
</head>
<body>
{content}
</body>
</html>"""

# Installed once per session. Replaces requestAnimationFrame with a queue that
# only drains when setAnimationTime(seconds) is called, then evaluates the
# caller's animation script. Script errors are reported to the console and do
# not abort the session.
TIME_HOOK_SCRIPT = """(animationScript) => {
  window.animationController = { currentTime: 0 };
  window.originalRAF = window.requestAnimationFrame;
  window.rafCallbacks = [];
  window.requestAnimationFrame = (callback) => {
    window.rafCallbacks.push(callback);
    return window.rafCallbacks.length - 1;
  };

  if (animationScript) {
    try {
      (0, eval)(animationScript);
    } catch (e) {
      console.error('Animation script error:', e);
    }
  }

  window.setAnimationTime = (time) => {
    window.animationController.currentTime = time;
    const callbacks = [...window.rafCallbacks];
    window.rafCallbacks = [];
    callbacks.forEach((cb) => {
      try {
        cb(time * 1000);
      } catch (e) {
        console.error('requestAnimationFrame callback error:', e);
      }
    });
    if (window.updateAnimation) {
      window.updateAnimation(time);
    }
  };
}"""

SET_TIME_SCRIPT = """(time) => {
  if (window.setAnimationTime) {
    window.setAnimationTime(time);
  }
}"""


def is_full_document(content: str) -> bool:
    """Return ``True`` when ``content`` already declares a complete document."""

    return bool(_FULL_DOCUMENT_PATTERN.search(content))


def build_document(spec: RenderSpec, *, title: str = "framecast render") -> str:
    """Return the HTML loaded into the session for ``spec``.

    Complete documents are used verbatim; fragments are wrapped in a minimal
    shell whose background is transparent or white.
    """

    if is_full_document(spec.content):
        return spec.content
    background = "transparent" if spec.transparent else "white"
    return _SHELL_TEMPLATE.format(title=title, background=background, content=spec.content)


__all__ = ["SET_TIME_SCRIPT", "TIME_HOOK_SCRIPT", "build_document", "is_full_document"]

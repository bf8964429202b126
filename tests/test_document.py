from __future__ import annotations

import pytest

from framecast import RenderSpec
from framecast.document import build_document, is_full_document


@pytest.mark.parametrize(
    "content",
    ["<!DOCTYPE html><html><body></body></html>", "<html><body>hi</body></html>", "  <!doctype html>"],
)
def test_complete_documents_are_used_verbatim(content: str) -> None:
    assert is_full_document(content)
    assert build_document(RenderSpec(content=content)) == content


def test_fragments_are_wrapped_with_transparent_background() -> None:
    document = build_document(RenderSpec(content="<svg id='logo'></svg>"))

    assert document.startswith("<!DOCTYPE html>")
    assert "<svg id='logo'></svg>" in document
    assert "background: transparent;" in document


def test_opaque_renders_use_white_background() -> None:
    document = build_document(RenderSpec(content="<div></div>", transparent=False), title="orbit")

    assert "background: white;" in document
    assert "<title>orbit</title>" in document

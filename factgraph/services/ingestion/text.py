import re

_SCRIPT = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_BLOCK_END = re.compile(r"</(p|div|br|tr|li|h1|h2|h3|h4|h5|h6)>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")

_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


def strip_html_to_text(html: str) -> str:
    """Lightweight HTML to plain text for filing documents.

    Block-level closing tags become newlines, other tags a space; a few
    common entities are decoded and whitespace is collapsed.
    """
    text = _SCRIPT.sub(" ", html or "")
    text = _STYLE.sub(" ", text)
    text = _BLOCK_END.sub("\n", text)
    text = _TAG.sub(" ", text)

    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)

    text = text.replace("\r", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    return text.strip()

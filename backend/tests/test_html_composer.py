from sitebuilder.repositories import StoredFile
from sitebuilder.services.html_composer import (
    HtmlComposer,
    circular_include_placeholder,
    missing_include_placeholder,
)
from sitebuilder.services.revision_store import Allocated

ENTRY = "landing/index.html"


class MemoryReader:
    """Every path exists at revision 1 with fixed content."""

    def __init__(self, files: dict[str, str]):
        self.files = files
        self.reads: list[tuple[str, int]] = []

    async def get_content_at_or_before(self, project_id, path, revision_number):
        self.reads.append((path, revision_number))
        if path not in self.files or revision_number < 1:
            return None
        return StoredFile(path=path, role="other", content=self.files[path], revision_number=1)


def _document(body: str) -> str:
    return f"<!DOCTYPE html><html><head></head><body>{body}</body></html>"


async def test_resolves_nested_includes_in_order():
    reader = MemoryReader({
        ENTRY: _document("<!-- include: landing/sections/header.html --><!-- include: landing/sections/footer.html -->"),
        "landing/sections/header.html": "<header><!-- include: landing/sections/nav.html --></header>",
        "landing/sections/nav.html": "<nav>menu</nav>",
        "landing/sections/footer.html": "<footer>bye</footer>",
    })

    document = await HtmlComposer(reader).compose("p1", 1)

    assert document.content == _document("<header><nav>menu</nav></header><footer>bye</footer>")
    assert document.warnings == []
    assert not document.degraded


async def test_missing_entry_returns_none():
    assert await HtmlComposer(MemoryReader({})).compose("p1", 1) is None


async def test_composition_is_deterministic():
    reader = MemoryReader({
        ENTRY: _document("<!-- include: landing/sections/a.html -->"),
        "landing/sections/a.html": "<p>a</p><!-- include: landing/sections/missing.html -->",
    })
    composer = HtmlComposer(reader)

    first = await composer.compose("p1", 1)
    second = await composer.compose("p1", 1)

    assert first.content == second.content
    assert first.warnings == second.warnings


async def test_self_include_yields_circular_placeholder():
    reader = MemoryReader({ENTRY: _document("<!-- include: landing/index.html -->")})

    document = await HtmlComposer(reader).compose("p1", 1)

    assert circular_include_placeholder(ENTRY) in document.content
    assert document.warnings == [f"Circular include: {ENTRY}"]


async def test_indirect_cycle_terminates():
    reader = MemoryReader({
        ENTRY: _document("<!-- include: landing/sections/a.html -->"),
        "landing/sections/a.html": "<a-part><!-- include: landing/sections/b.html --></a-part>",
        "landing/sections/b.html": "<b-part><!-- include: landing/sections/a.html --></b-part>",
    })

    document = await HtmlComposer(reader).compose("p1", 1)

    assert circular_include_placeholder("landing/sections/a.html") in document.content
    assert document.content.count("<b-part>") == 1


async def test_invalid_and_missing_includes_become_placeholders():
    reader = MemoryReader({
        ENTRY: _document("<!-- include: ../secrets.html --><!-- INCLUDE: landing/sections/gone.html -->"),
    })

    document = await HtmlComposer(reader).compose("p1", 1)

    assert missing_include_placeholder("../secrets.html") in document.content
    assert missing_include_placeholder("landing/sections/gone.html") in document.content
    assert "Invalid include path: ../secrets.html" in document.warnings
    assert "Missing include: landing/sections/gone.html" in document.warnings


async def test_total_include_cap_leaves_directives_verbatim():
    directive = "<!-- include: landing/sections/item.html -->"
    reader = MemoryReader({
        ENTRY: _document(directive * 5),
        "landing/sections/item.html": "<li>item</li>",
    })

    document = await HtmlComposer(reader, max_includes=3).compose("p1", 1)

    assert document.content.count("<li>item</li>") == 3
    assert document.content.count(directive) == 2
    assert document.warnings == ["Include limit 3 reached; directives left unresolved"]


async def test_depth_cap_leaves_directives_verbatim():
    files = {ENTRY: _document("<!-- include: landing/sections/level1.html -->")}
    for level in range(1, 6):
        files[f"landing/sections/level{level}.html"] = (
            f"<div>{level}<!-- include: landing/sections/level{level + 1}.html --></div>"
        )
    reader = MemoryReader(files)

    document = await HtmlComposer(reader, max_depth=2).compose("p1", 1)

    assert "<div>1<div>2<div>3" in document.content
    assert "<!-- include: landing/sections/level4.html -->" in document.content
    assert "<div>4" not in document.content
    assert document.degraded


async def test_includes_resolve_against_one_revision(store):
    async def write(path, content):
        allocation = await store.create_revision("p1", "user-1")
        assert isinstance(allocation, Allocated)
        site_file = await store.upsert_file("p1", path, "section")
        await store.create_file_version(site_file.id, allocation.revision.id, content)

    await write(ENTRY, _document("<!-- include: landing/sections/hero.html -->"))
    await write("landing/sections/hero.html", "<h1>v1</h1>")
    await write("landing/sections/hero.html", "<h1>v2</h1>")

    composer = HtmlComposer(store)

    assert "missing" in (await composer.compose("p1", 1)).content.lower()
    assert "<h1>v1</h1>" in (await composer.compose("p1", 2)).content
    assert "<h1>v2</h1>" in (await composer.compose("p1", 3)).content

import pytest

from agents.synthesizer import ContentSynthesizer, minimal_content, sanitize_content
from errors import ContentValidationError, GenerationError
from models import ContentSource, PressReviewContent, PressReviewSection
from tests.fakes import FakeGenerator, make_article, make_content, make_context

A, B = "https://a.com/1", "https://b.com/2"


def _section(title, *sources, text="Narrative across sources."):
    return PressReviewSection(
        title=title,
        text=text,
        sources=[ContentSource(title=t, url=u) for t, u in sources],
    )


def test_sanitize_drops_unknown_citations_and_empty_sections():
    content = PressReviewContent(
        headline="Headline",
        intro="Intro",
        sections=[
            _section("Kept", ("", A + "/"), ("Made up", "https://invented.example"), ("Again", A)),
            _section("Unbacked", ("Made up", "https://invented.example")),
            _section("Blank", ("B", B), text="   "),
        ],
    )
    research = [make_article(A, title="Alpha"), make_article(B, title="Beta")]

    cleaned = sanitize_content(content, research)

    assert [s.title for s in cleaned.sections] == ["Kept"]
    assert cleaned.sections[0].sources == [ContentSource(title="Alpha", url=A)]
    assert cleaned.headline == "Headline"


def test_sanitize_rejects_content_without_valid_sections():
    content = PressReviewContent(
        headline="Headline",
        intro="Intro",
        sections=[_section("Unbacked", ("Made up", "https://invented.example"))],
    )
    with pytest.raises(ContentValidationError):
        sanitize_content(content, [make_article(A)])


def test_minimal_content():
    content = minimal_content("Quantum Computing")
    assert content.headline.startswith("Quantum Computing")
    assert "Quantum Computing" in content.intro
    assert content.sections == []


@pytest.mark.asyncio
async def test_empty_research_skips_model_call(config):
    generator = FakeGenerator()
    synthesizer = ContentSynthesizer(generator, config)

    content = await synthesizer.synthesize("AI", make_context(), [])

    assert content == minimal_content("AI")
    assert generator.calls == []


@pytest.mark.asyncio
async def test_synthesize_uses_persona_and_research(config):
    generator = FakeGenerator({PressReviewContent: make_content(A, "https://invented.example")})
    synthesizer = ContentSynthesizer(generator, config)
    context = make_context()

    content = await synthesizer.synthesize("AI", context, [make_article(A), make_article(B)])

    assert content.source_urls() == {A}
    [(model, prompt, _)] = generator.calls
    assert model == config.synthesis_model
    assert context.persona in prompt
    assert '"keyFacts"' in prompt
    assert B in prompt


@pytest.mark.asyncio
async def test_synthesize_propagates_generation_error(config):
    generator = FakeGenerator({PressReviewContent: GenerationError("PressReviewContent generation timed out")})
    synthesizer = ContentSynthesizer(generator, config)

    with pytest.raises(GenerationError):
        await synthesizer.synthesize("AI", make_context(), [make_article(A)])

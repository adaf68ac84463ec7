"""Prompt builders for the research agents."""

from datetime import date

from person_research.models import SearchResult, SearchSource, SubjectContext
from person_research.research.models import PersonIdentity


def current_date() -> str:
    return date.today().strftime("%B %d, %Y").replace(" 0", " ")


def query_prompt(topic: str, max_queries: int, is_follow_up: bool, previous_queries: list[str]) -> str:
    lines = [
        f"Research topic: {topic}",
        f"Current date: {current_date()}",
        f"Generate {max_queries} or fewer search queries.",
    ]
    if is_follow_up and previous_queries:
        lines.append("")
        lines.append("FOLLOW-UP: you already searched: [" + ", ".join(previous_queries) + "]")
        lines.append("Generate different queries that find more information. Do not repeat these.")
    else:
        lines.append("")
        lines.append("INITIAL RESEARCH: this is the first search on this topic; start with the obvious angles.")
    return "\n".join(lines)


def follow_up_prompt(topic: str, max_queries: int, previous_queries: list[str], questions: list[str]) -> str:
    """Turn reflection questions into search queries for the next loop."""
    base = query_prompt(topic, max_queries, True, previous_queries)
    return base + "\n\nQuestions to answer next:\n" + "\n".join(f"- {q}" for q in questions)


def _format_sources(sources: list[SearchSource]) -> str:
    return "\n\n".join(
        f"[{index}] {source.title}\nURL: {source.url}\nSnippet: {source.snippet}"
        for index, source in enumerate(sources, 1)
    )


def summary_prompt(topic: str, query: str, sources: list[SearchSource]) -> str:
    return (
        f"Research topic: {topic}\n"
        f"Search query: {query}\n"
        f"Current date: {current_date()}\n\n"
        f"Search results:\n{_format_sources(sources)}\n\n"
        f'Summarize what these results establish about "{topic}".'
    )


def reflection_prompt(topic: str, summaries: list[SearchResult]) -> str:
    body = "\n\n".join(
        f'Summary {index} (query: "{summary.query}", {len(summary.sources)} sources):\n{summary.content}'
        for index, summary in enumerate(summaries, 1)
    )
    return f"Research topic: {topic}\n\nResearch summaries:\n{body or '(none)'}"


def synthesis_prompt(topic: str, summaries: list[SearchResult]) -> str:
    blocks = []
    for index, summary in enumerate(summaries, 1):
        sources = "\n".join(f"   - {source.title} ({source.url})" for source in summary.sources)
        blocks.append(f'[{index}] Query: "{summary.query}"\n{summary.content}\nSources:\n{sources}')
    joined = "\n---\n".join(blocks)
    return (
        f"Current date: {current_date()}\n"
        f"Research topic: {topic}\n\n"
        f"Research summaries and sources:\n{joined}\n\n"
        f'Provide a thorough, well-structured answer to: "{topic}".'
    )


def profile_prompt(topic: str, answer: str, summaries: list[SearchResult]) -> str:
    material = "\n\n".join(
        f"Query: {summary.query}\nSummary: {summary.content}\nSources:\n"
        + "\n".join(f"- {source.title}: {source.snippet}" for source in summary.sources)
        for summary in summaries
    )
    return f"Research topic: {topic}\n\nResearch answer:\n{answer}\n\nResearch summaries and sources:\n{material}"


def identity_prompt(subject: SubjectContext, sources: list[SearchSource]) -> str:
    lines = ["SUBJECT:", f"- Full name: {subject.full_name}"]
    if subject.location:
        lines.append(f"- Location: {subject.location}")
    if subject.notes:
        lines.append(f"- Notes: {subject.notes}")
    if sources:
        lines.append("")
        lines.append(f"INITIAL SEARCH RESULTS:\n{_format_sources(sources)}")
    return "\n".join(lines)


def verification_prompt(identity: PersonIdentity, source: SearchSource) -> str:
    details = [
        ("Full name", identity.full_name),
        ("Probable age", identity.probable_age),
        ("Location", identity.location),
        ("Profession", identity.profession),
        ("Education", identity.education),
        ("Organizations", identity.organizations),
    ]
    profile = "\n".join(f"- {label}: {value}" for label, value in details if value)
    identifiers = "\n".join(f"- {item}" for item in identity.key_identifiers) or "- (none)"
    return (
        f"PERSON IDENTITY:\n{profile}\n\n"
        f"KEY IDENTIFIERS:\n{identifiers}\n\n"
        f"SEARCH RESULT TO VERIFY:\n- Title: {source.title}\n- URL: {source.url}\n- Snippet: {source.snippet}"
    )

"""Prompt used to turn a meeting transcript into structured notes."""

NOTES_SECTIONS = [
    "Meeting Notes [Include inferred date]",
    "Action Items",
    "Meeting Purpose",
    "Key Takeaways",
    "Topics Discussed",
    "Problem",
    "Blocker",
    "Solution or Proposal",
    "Next Steps",
]

NOTES_PROMPT = """You create clear and structured meeting notes. Read the transcript and produce well-organised notes in markdown with accurate detail and concise wording. Infer the meeting date if it is mentioned or implied.

Use the following sections when they apply:

{sections}

Write in plain UK English. Keep each section brief but complete. Do not invent details that are not supported by the transcript.

---

TRANSCRIPT:
{transcript}

---

Generate comprehensive meeting notes following the format above. Extract actual names, specific action items, and technical details from the transcript. If certain sections do not apply (e.g., no blockers discussed), omit them. Be concise but thorough."""


def build_notes_prompt(transcript: str) -> str:
    """Embed the transcript verbatim in the notes prompt."""
    # Plain replace so braces inside the transcript are left alone
    return NOTES_PROMPT.replace("{sections}", "\n".join(NOTES_SECTIONS)).replace("{transcript}", transcript)

"""
Grounding instruction assembly for the chat model.

compose() is pure: identical inputs always produce the identical string.
"""
from typing import Optional, Sequence

PROTOCOL_HEADER = """\
RESPONSE PROTOCOL (mandatory):
Reply with a single valid JSON object and nothing else. Never answer in prose.
The object must contain these fields:
{
  "reply": "your friendly response to the customer",
  "show_products": true or false (true when the customer should see the product gallery),
  "product_name": "exact catalog product the customer picked, or null",
  "visualize": true or false (true only when the customer asks to see a product on their photo),
  "style_description": "color, material and style details for the visualization, or null",
  "lead_data": {
    "name": "customer name or null",
    "phone": "customer phone or null",
    "email": "customer email or null",
    "address": "customer address or null",
    "project_summary": "what the customer needs, or null",
    "appointment_request": "requested date/time for an estimate, or null",
    "preferred_method": "phone, email or text, or null",
    "quality_score": 1-10 rating of how likely this lead is to buy, or null,
    "ai_summary": "one or two sentence summary of the conversation so far, or null"
  }
}

SALES RULES:
1. Lead the conversation. Learn the customer's needs (rooms, window sizes, light, privacy).
2. Once you understand the needs, ask for a name and a phone number or email to schedule a free estimate.
3. A lead needs a phone number OR an email address. An address is optional.
4. If the customer wants to see a product in their room and has not shared a photo, ask them to upload one.
5. Never claim a visualization was created; the system attaches it when it succeeds."""


def fallback_persona(company_name: str) -> str:
    return f"You are a helpful sales assistant for {company_name}."


def compose(
    company_name: str,
    persona: Optional[str],
    product_names: Sequence[str],
    knowledge: Sequence[str] = ()
) -> str:
    """
    Build the system instruction for one turn.

    Args:
        company_name: Tenant display name, used by the fallback persona
        persona: Generated persona document (None or blank falls back to a generic one)
        product_names: Catalog names the model may reference, in catalog order
        knowledge: Retrieved grounding snippets, most relevant first

    Returns:
        The grounding instruction string
    """
    persona_text = (persona or "").strip() or fallback_persona(company_name)

    sections = [PROTOCOL_HEADER, "PERSONA:\n" + persona_text]

    names = [name.strip() for name in product_names if name and name.strip()]
    if names:
        catalog = "\n".join(f"- {name}" for name in names)
        sections.append(
            "PRODUCT CATALOG:\n"
            "Only recommend or visualize these products. Use the exact name in product_name.\n"
            + catalog
        )
    else:
        sections.append(
            "PRODUCT CATALOG:\n"
            "No catalog is configured. Do not name specific products and set product_name to null."
        )

    snippets = [snippet.strip() for snippet in knowledge if snippet and snippet.strip()]
    if snippets:
        facts = "\n".join(f"[{i}] {snippet}" for i, snippet in enumerate(snippets, start=1))
        sections.append(
            "COMPANY KNOWLEDGE:\n"
            "These facts come from the company's own documents. When they answer the "
            "question, they take precedence over the persona and your general knowledge.\n"
            + facts
        )

    return "\n\n".join(sections)

from typing import Optional, Dict, Any, List
import os

from openai import OpenAI

MODEL = "gpt-4o-mini"

def generate_ai_report(
    summary: Dict[str, Any],
    exits: List[Dict[str, Any]],
    api_key: Optional[str] = None,
    client: Optional[OpenAI] = None,
) -> str:
    """Write an investor-facing narrative for an off-plan quote using OpenAI.

    `summary` is the output of build_cashflow_summary and `exits` the exit
    table rows. If a client is passed, it is used directly (useful for tests).
    Otherwise a client is built from api_key or the OPENAI_API_KEY
    environment variable.
    """
    if client is None:
        resolved_api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not resolved_api_key:
            raise ValueError("Missing OpenAI API key. Provide api_key or set OPENAI_API_KEY.")
        client = OpenAI(api_key=resolved_api_key)

    prompt = f"""
    You are a Dubai off-plan property investment advisor.
    Based on the following data, write a structured investment summary.
    All amounts are in AED. Quote ROE figures exactly as given.

    Quote:
    {summary}

    Exit scenarios:
    {exits}

    Report structure:
    1. Executive Summary
    2. Payment Plan and Cash Required
    3. Exit Scenarios (note any resale threshold advances)
    4. Rental Potential
    5. Final Recommendation (HOLD TO HANDOVER, EARLY EXIT, or HOLD FOR RENT)
    """

    response = client.chat.completions.create(
        model=MODEL,
        messages=[
            {"role": "system", "content": "You are a professional UAE real estate investment advisor."},
            {"role": "user", "content": prompt},
        ],
    )
    return response.choices[0].message.content

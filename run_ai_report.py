import sys, pathlib
from pathlib import Path
root = pathlib.Path(__file__).resolve().parent
sys.path.insert(0, str(root / "src"))

import json as _json
import os
import argparse

from offplan.schema import MortgageInputs, OIInputs
from offplan.engine import run_exit_scenarios
from offplan.summary import build_cashflow_summary
from offplan.ai import report_generator


def main():
    parser = argparse.ArgumentParser(description="Generate AI investment summary from sample inputs")
    parser.add_argument("--api-key", dest="api_key", default=os.getenv("OPENAI_API_KEY"), help="OpenAI API key (falls back to OPENAI_API_KEY env var)")
    parser.add_argument("--offline", action="store_true", help="Generate a deterministic test report without calling OpenAI")
    parser.add_argument("--mortgage", action="store_true", help="Include default mortgage terms in the summary")
    args = parser.parse_args()
    scenario = Path("scenarios") / "sample_inputs.json"
    if not scenario.exists():
        print("Scenario file not found:", scenario)
        raise SystemExit(1)

    with scenario.open('r', encoding='utf-8') as fh:
        data = _json.load(fh)

    inputs = OIInputs.from_saved(data)

    mortgage = MortgageInputs(enabled=True) if args.mortgage else None
    summary = build_cashflow_summary(inputs, mortgage=mortgage)
    exits = run_exit_scenarios(inputs).to_dict(orient="records")

    if args.offline:
        # Produce a simple, deterministic test report
        commitment = summary["todays_commitment"]
        report_lines = [
            "Executive Summary:",
            f"- Price: {summary['property']['price']:,.0f} AED",
            f"- Construction: {summary['timeline']['construction_months']} months to {summary['timeline']['handover_date']}",
            "",
            "Payment Plan and Cash Required:",
            f"- Today: {commitment['total']:,.0f} AED (downpayment, DLD and Oqood)",
            f"- Pre-handover: {summary['payment_structure']['pre_handover_percent']:.1f}%",
            "",
            "Exit Scenarios:",
        ]
        for row in exits:
            report_lines.append(f"- {row['Label']}: ROE {row['ROE']:.1f}% ({row['Basis']})")
        report_lines += [
            "",
            "Rental Potential:",
            f"- Net yield: {summary['rental']['net_yield_percent']:.2f}%",
            "",
            "Final Recommendation:",
            "- HOLD TO HANDOVER (test report)",
        ]
        report = "\n".join(report_lines)
    else:
        try:
            report = report_generator.generate_ai_report(summary, exits, api_key=args.api_key)
        except Exception as e:
            print("❌ Failed to generate AI report:", str(e))
            print("Hint: set OPENAI_API_KEY environment variable or pass --api-key.")
            raise

    out_dir = Path('outputs')
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / 'ai_report.txt'
    with out_path.open('w', encoding='utf-8') as fh:
        fh.write(report)

    print("\n=== AI Report (saved to outputs/ai_report.txt) ===\n")
    print(report)


if __name__ == "__main__":
    main()

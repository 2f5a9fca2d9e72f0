import sys, pathlib
from pathlib import Path
root = pathlib.Path(__file__).resolve().parent
sys.path.insert(0, str(root / "src"))

import argparse
import json as _json
from offplan.schema import OIInputs
from offplan.engine import get_exit_label
from offplan.payments import total_months_to_handover
from offplan.sensitivity import run_sensitivity_grid, summarize_sensitivity

parser = argparse.ArgumentParser(description="Exit ROE sensitivity for an off-plan quote")
parser.add_argument("--scenario", default=str(Path("scenarios") / "sample_inputs.json"))
parser.add_argument("--exit-month", dest="exit_month", type=float, help="Exit month from booking (default: handover)")
args = parser.parse_args()

scenario = Path(args.scenario)
if not scenario.exists():
    print("Scenario file not found:", scenario)
    raise SystemExit(1)

inputs = OIInputs.from_saved(_json.loads(scenario.read_text(encoding="utf-8")))
total_months = total_months_to_handover(inputs)
exit_month = args.exit_month if args.exit_month is not None else total_months

grid = run_sensitivity_grid(inputs, exit_month=exit_month)
ranked = summarize_sensitivity(grid)

out_dir = Path('outputs')
out_dir.mkdir(parents=True, exist_ok=True)
grid.to_csv(out_dir / 'sensitivity_grid.csv', index=False)
ranked.to_csv(out_dir / 'sensitivity_summary.csv', index=False)

print(f"Exit at month {exit_month:g} ({get_exit_label(exit_month, total_months)})")
print(ranked[ranked["Type"] == "Net"].to_string(index=False, float_format="{:.2f}".format))
print("\nWrote", out_dir / 'sensitivity_grid.csv')
print("Wrote", out_dir / 'sensitivity_summary.csv')

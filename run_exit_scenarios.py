import sys, pathlib
from pathlib import Path
root = pathlib.Path(__file__).resolve().parent
sys.path.insert(0, str(root / "src"))

import argparse
import json as _json

from offplan.schema import OIInputs
from offplan.engine import run_exit_scenarios
from offplan.payments import build_payment_timeline, total_months_to_handover, validation_warnings


def main():
    parser = argparse.ArgumentParser(description="Exit scenario table for an off-plan quote")
    parser.add_argument("--scenario", default=str(Path("scenarios") / "sample_inputs.json"), help="Inputs JSON file")
    parser.add_argument("--months", type=int, nargs="*", help="Exit months from booking (defaults around handover)")
    args = parser.parse_args()

    scenario = Path(args.scenario)
    if not scenario.exists():
        print("Scenario file not found:", scenario)
        raise SystemExit(1)

    with scenario.open('r', encoding='utf-8') as fh:
        data = _json.load(fh)

    inputs = OIInputs.from_saved(data)
    print('Loaded inputs:')
    print(_json.dumps(inputs.model_dump(), indent=2, default=str))

    for w in validation_warnings(inputs):
        print("⚠", w)

    print(f"\nConstruction period: {total_months_to_handover(inputs)} months")

    timeline = build_payment_timeline(inputs)
    exits = run_exit_scenarios(inputs, args.months)

    out_dir = Path('outputs')
    out_dir.mkdir(parents=True, exist_ok=True)
    timeline_path = out_dir / 'payment_timeline.csv'
    exits_path = out_dir / 'exit_scenarios.csv'
    timeline.drop(columns=["Milestone"]).to_csv(timeline_path, index=True)
    exits.to_csv(exits_path, index=False)

    print('\nPayment timeline:')
    print(timeline.drop(columns=["Milestone"]).to_string())
    print('\nExit scenarios:')
    print(exits.to_string(index=False))
    print('\nWrote', timeline_path)
    print('Wrote', exits_path)


if __name__ == "__main__":
    main()

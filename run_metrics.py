import sys, pathlib
from pathlib import Path
root = pathlib.Path(__file__).resolve().parent
sys.path.insert(0, str(root / "src"))

import json as _json
from offplan.schema import MortgageInputs, OIInputs
from offplan.appreciation import build_yearly_projections
from offplan.engine import calculate_exit_scenario, compute_entry_costs
from offplan.payments import build_payment_timeline, pre_handover_percent, total_months_to_handover
from offplan.mortgage import analyze_mortgage
from offplan import metrics as m

scenario = Path("scenarios") / "sample_inputs.json"
if not scenario.exists():
    print("Scenario file not found:", scenario)
    raise SystemExit(1)

with scenario.open('r', encoding='utf-8') as fh:
    data = _json.load(fh)

inputs = OIInputs.from_saved(data)

total_months = total_months_to_handover(inputs)
timeline = build_payment_timeline(inputs)
sc = calculate_exit_scenario(total_months, inputs.base_price, total_months, inputs, compute_entry_costs(inputs))
eq = m.exit_cashflows(sc, timeline)
rental = m.rental_summary(inputs)
mortgage = analyze_mortgage(
    MortgageInputs(enabled=True),
    inputs.base_price,
    pre_handover_percent(timeline),
    monthly_rent=rental["gross_monthly"],
    monthly_service_charges=rental["service_charge_annual"] / 12,
)

out = {
    "handover_exit": sc.model_dump(),
    "handover_display": sc.display(),
    "handover_irr": m.exit_irr(eq),
    "rental": rental,
    "mortgage": mortgage.model_dump(exclude={"amortization_schedule"}),
}

out_dir = Path('outputs')
out_dir.mkdir(parents=True, exist_ok=True)
with (out_dir / 'metrics.json').open('w', encoding='utf-8') as fh:
    _json.dump(out, fh, indent=2, default=str)

print("Wrote metrics to", out_dir / 'metrics.json')

# Also write the exit cash flows and yearly projections for review
eq_path = out_dir / 'handover_cashflows.csv'
proj_path = out_dir / 'yearly_projections.csv'
eq.to_csv(eq_path, index=True)
build_yearly_projections(inputs, total_months=total_months).to_csv(proj_path, index=True)
print("Wrote", eq_path)
print("Wrote", proj_path)

"""Example: push a property through the standard valuation workflow with edit commands."""
from propflow.config import configure_logging, load_config
from propflow.templates.builtin import default_repository
from propflow.workflow.engine import InstanceEngine
from propflow.workflow.executor import run_commands
from propflow.workflow.presentation import display_values


def main():
    config = load_config()
    configure_logging(config.log_level)

    engine = InstanceEngine(templates=default_repository(), config=config)
    instance = engine.create_instance_from_repository("valuations", "prop-12-high-st", "12 High Street valuation")
    ws = {w.key: w.id for w in instance.workstreams}

    commands = [
        {"action": "start_instance"},
        {"workstream_id": ws["valuer_assignment"], "field_id": "valuer_name", "raw_value": "Jane Smith"},
        {"workstream_id": ws["valuer_assignment"], "field_id": "assignment_date", "raw_value": "2024-01-02"},
        {"action": "complete_workstream", "workstream_id": ws["valuer_assignment"]},
        {"workstream_id": ws["field_completion"], "field_id": "gross_rental_income", "raw_value": "$100,000"},
        {"workstream_id": ws["field_completion"], "field_id": "operating_expenses", "raw_value": 40000},
        {"workstream_id": ws["field_completion"], "field_id": "cap_rate", "raw_value": 6},
        {"workstream_id": ws["field_completion"], "field_id": "property_area", "raw_value": 8000},
        # Rejected: formula fields are read-only
        {"workstream_id": ws["field_completion"], "field_id": "property_value", "raw_value": 1},
        {"action": "complete_workstream", "workstream_id": ws["field_completion"]},
        {"workstream_id": ws["review"], "field_id": "market_value_estimate", "raw_value": 1030000},
        {"workstream_id": ws["review"], "field_id": "review_date", "raw_value": "2024-01-12"},
    ]

    for result in run_commands(engine, instance, commands):
        print(result.to_dict())

    for workstream in instance.ordered_workstreams():
        print(f"\n{workstream.name} [{workstream.status}]")
        for field_id, shown in display_values(workstream, config).items():
            if shown:
                print(f"  {field_id}: {shown}")

    print(f"\nProgress: {instance.completion_percentage}%  current: {instance.current_workstream_id}")


if __name__ == "__main__":
    main()

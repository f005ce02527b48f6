"""Service layer: incentive orchestration, contribution lifecycle, workflow."""

"""Priority dispatcher: scheduler, execution contexts and request models."""

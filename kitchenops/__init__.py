"""Kitchen operations workflow engine for event catering."""

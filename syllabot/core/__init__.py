"""Core state: modal metadata, dependent selection, sessions, workflow FSM."""

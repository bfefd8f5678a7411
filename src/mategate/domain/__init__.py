"""Pure domain types: envelopes, error codes, command parameters, lifecycle."""

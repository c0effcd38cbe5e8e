"""netalert — network alert correlation and escalation engine."""

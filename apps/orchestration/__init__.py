"""
Pipeline Orchestration app.

This app ships one commit through a strict, linear chain:
test → quality_scan → provision → build → deploy

Key concepts:
- Single orchestrator with correlation IDs (trace_id/run_id)
- State machine: PENDING → TESTED → SCANNED → PROVISIONED → BUILT → DEPLOYED (or FAILED)
- Structured DTOs between stages, artifacts for files
- Monitoring signals at every stage boundary
"""

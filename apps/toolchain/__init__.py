"""
Toolchain app.

Thin, testable wrappers around the external tools the pipeline drives:
git, python/pytest/coverage, sonar-scanner, terraform, docker and the AWS CLI.

Every command runs inside an isolated stage workspace with only the secrets
scoped to that stage, and all captured output is redacted before it is logged
or stored.
"""

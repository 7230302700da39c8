#!/usr/bin/env python3
"""Startup checks for environment and dependencies.

Reports missing env vars for the configured ledger backend, credential path
issues, and missing Python packages needed to serve charts and PDF reports.

It exits non-zero when run with `raise_on_error=True` inside CI or local checks.
"""
import os
import sys
import importlib

from dotenv import load_dotenv

load_dotenv()

LEDGER_BACKENDS = {"memory", "sheets"}


def _module_available(name: str) -> bool:
    try:
        importlib.import_module(name)
        return True
    except Exception:
        return False


def _version_of(package: str):
    try:
        from importlib.metadata import version
        return version(package)
    except Exception:
        return None


def run_checks(raise_on_error: bool = True):
    errors = []
    warnings = []

    backend = (os.getenv("LEDGER_BACKEND") or "memory").strip().strip("'\"").lower()
    if backend not in LEDGER_BACKENDS:
        errors.append(f"LEDGER_BACKEND must be one of {sorted(LEDGER_BACKENDS)} (found: {backend!r})")

    required_modules = [
        ("fastapi", "fastapi"),
        ("pydantic", "pydantic"),
        ("reportlab", "reportlab"),
    ]

    if backend == "sheets":
        for k in ("LEDGER_SPREADSHEET_ID", "GOOGLE_APPLICATION_CREDENTIALS"):
            if not os.getenv(k):
                errors.append(f"Missing env var: {k}")

        # Credentials file existence
        cred = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if cred:
            cred = cred.strip()
            if not os.path.isabs(cred):
                cred = os.path.abspath(cred)
            if not os.path.isfile(cred):
                errors.append(f"GOOGLE_APPLICATION_CREDENTIALS file not found: {cred}")

        required_modules += [
            ("google.auth", "google-auth"),
            ("googleapiclient", "google-api-python-client"),
        ]
    elif backend == "memory":
        warnings.append("LEDGER_BACKEND is 'memory'; expenses are lost on restart")

    if not os.getenv("EXPENSE_API_KEY"):
        warnings.append("EXPENSE_API_KEY is not set; /api routes accept requests without X-Api-Key")

    for k in ("PORT", "RECENT_LIMIT", "TREND_WINDOW_DAYS"):
        v = os.getenv(k)
        if v and not v.strip().strip("'\"").isdigit():
            errors.append(f"{k} must be a positive integer (found: {v!r})")

    for mod, pkg in required_modules:
        if not _module_available(mod):
            errors.append(f"Missing Python module: {mod} (install package: {pkg})")
        elif pkg == "pydantic":
            v = _version_of(pkg)
            if v and v.split(".")[0].isdigit() and int(v.split(".")[0]) < 2:
                warnings.append(f"{pkg} version {v} < 2.0; models require pydantic v2")

    report = {"errors": errors, "warnings": warnings}
    if errors and raise_on_error:
        msg = "Startup checks failed:\n" + "\n".join(errors + warnings)
        raise SystemExit(msg)
    return report


def main():
    report = run_checks(raise_on_error=False)
    print("STARTUP CHECKS:")
    print("Errors:", report.get("errors"))
    print("Warnings:", report.get("warnings"))
    if report.get("errors"):
        missing_pkgs = []
        for err in report.get("errors", []):
            # format: Missing Python module: <mod> (install package: <pkg>)
            if "install package:" in err:
                missing_pkgs.append(err.split("install package:")[-1].strip().rstrip(")"))

        if missing_pkgs:
            print("\nSuggested fix:")
            print("pip install " + " ".join(sorted(set(missing_pkgs))))
            print("or install the project: pip install -e .")

        sys.exit(2)


if __name__ == "__main__":
    main()

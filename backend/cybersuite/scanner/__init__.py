# cybersuite/scanner/__init__.py
"""
Passive recon pipeline.

    target.py        SSRF guard, Target
    probe.py         single-port prober state machine
    engines/         data collection (http, tls, ports)
    analyzers/       engine data → Findings, risk scoring
    orchestrator.py  lite scan and website report

Import the orchestrator from its module; the intel clients depend on
analyzers in this package.
"""

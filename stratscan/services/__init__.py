"""
StratScan services: detectors, scoring, risk, throttling and the scan loop.
"""

"""
Extraction backends package.

Both strategies hand the staged PDF to the agent runtime with the same
prompt and satisfy the ExtractionBackend protocol; the dispatcher picks
between them based on gateway readiness.
"""

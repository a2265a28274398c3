"""
SlimGate — Container Image Minification Orchestrator

  config        — SlimConfig builder → frozen SlimSettings
  args          — settings + run parameters → engine argument vector
  runtime       — ContainerRuntime protocol, docker CLI backend
  orchestrator  — ephemeral daemon state machine
  pipeline      — minify / compare entry points and fallback policy
  ledger        — signed provenance record per run
"""

__version__ = "0.3.0"

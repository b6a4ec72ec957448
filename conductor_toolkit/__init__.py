"""Automation helpers for bootstrapping a GitOps-managed k3s node."""

"""Event publishing through the Dapr sidecar."""

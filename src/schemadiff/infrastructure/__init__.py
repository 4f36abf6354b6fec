"""Infrastructure layer: database engines, introspection and sandboxes."""

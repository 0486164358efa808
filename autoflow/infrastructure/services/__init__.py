"""Engine services: execution engine, template renderer, worker pool, trigger dispatcher."""

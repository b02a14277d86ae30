def _inject_otel_resource_attributes(resource: dict, metadata: dict) -> dict:
    enriched = dict(resource)
    enriched.update(
        {
            "amqpbench.run.name": metadata["run_name"],
            "amqpbench.run.id": metadata["run_id"],
            "amqpbench.run.sampler": metadata["sampler"],
            "amqpbench.run.pid": metadata["pid"],
            "amqpbench.run.host.name": metadata["host_name"],
            "amqpbench.run.start_time": metadata["start_time"],
        }
    )
    return enriched

"""Device telemetry sampler: CPU, memory, network, disk and process stats over adb."""

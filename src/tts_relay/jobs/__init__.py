"""
Job Tracking and Processing.

    - registry.py: JobRecord, JobStatus and the JobRegistry interface
    - validators.py: Synchronous submission checks
    - params.py: JobRequest (as received) and ProcessingParams (validated)
    - runner.py: Bounded worker pool
    - service.py: JobService (submit / status / process) and errors
"""

"""
Web route blueprints.

Organized by namespace, mirroring CLI structure:
- job_routes: job creation, status, processing and actions
- batch_routes: batch submissions per book and batch actions
- split_routes: spread detection, split and revert
- cleanup_routes: retention report and sweep
"""

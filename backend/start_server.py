#!/usr/bin/env python3
"""
Startup script for container deployment.
Runs migrations and the provider seed, then the API server, a Celery worker
and Celery beat (scheduled syncs and webhook retries).
"""
import os
import sys
import subprocess
import signal
import time

processes = []
BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def run_migrations():
    """Run alembic migrations"""
    print("Running database migrations...")
    result = subprocess.run(
        ['alembic', 'upgrade', 'head'],
        capture_output=True,
        text=True,
        cwd=BASE_DIR
    )
    if result.returncode != 0:
        print(f"Migration failed: {result.stderr}")
        sys.exit(result.returncode)
    print("Migrations completed successfully")
    if result.stdout:
        print(result.stdout)


def seed_catalog():
    """Insert or refresh the stock provider catalog"""
    print("Seeding provider catalog...")
    result = subprocess.run([sys.executable, '-m', 'integrations_hub.seed'], cwd=BASE_DIR)
    if result.returncode != 0:
        print("Provider seed failed")
        sys.exit(result.returncode)


def start_celery(role):
    """Start a Celery worker or beat process in background"""
    redis_url = os.environ.get('REDIS_URL', '')
    if not redis_url:
        print(f"WARNING: REDIS_URL not configured. Celery {role} will not start.")
        return None

    command = ['celery', '-A', 'integrations_hub.tasks.celery_app', role, '--loglevel=info']
    if role == 'worker':
        command += ['--concurrency=2', '-Q', 'default']

    process = subprocess.Popen(command, cwd=BASE_DIR)
    print(f"Celery {role} started with PID {process.pid}")
    return process


def start_uvicorn():
    """Start uvicorn server"""
    port = os.environ.get('PORT', '8000')
    print(f"Starting uvicorn on port {port}")

    process = subprocess.Popen(
        [
            'uvicorn', 'integrations_hub.main:app',
            '--host', '0.0.0.0',
            '--port', port
        ],
        cwd=BASE_DIR
    )
    print(f"Uvicorn started with PID {process.pid}")
    return process


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    global processes
    print(f"Received signal {signum}, shutting down...")
    for p in processes:
        if p and p.poll() is None:
            print(f"Stopping process {p.pid}...")
            p.terminate()

    for p in processes:
        if p:
            try:
                p.wait(timeout=10)
            except subprocess.TimeoutExpired:
                p.kill()

    sys.exit(0)


def main():
    global processes

    run_migrations()
    seed_catalog()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    for role in ('worker', 'beat'):
        process = start_celery(role)
        if process:
            processes.append(process)

    # Give Celery a moment to start
    time.sleep(2)

    uvicorn = start_uvicorn()
    processes.append(uvicorn)

    # If uvicorn exits, everything else is stopped
    try:
        uvicorn.wait()
    except KeyboardInterrupt:
        pass
    finally:
        signal_handler(signal.SIGTERM, None)


if __name__ == '__main__':
    main()

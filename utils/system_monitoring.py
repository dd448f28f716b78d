#!/usr/bin/env python3
"""
System Monitoring Module

Process resource snapshots and progress logging for long-running chain
operations such as ingesting a large chat history.
"""

import os
import time
import threading
import psutil
from datetime import datetime


class ResourceMonitor:
    """
    Tracks one named operation at a time and attaches process resource usage
    to the progress messages it logs.
    """

    def __init__(self, logger, warning_memory_mb=None):
        """
        Initialize the resource monitor.

        Args:
            logger: Logger instance for recording resource metrics
            warning_memory_mb (float, optional): Resident memory above which
                progress logs are emitted at WARNING level
        """
        self.logger = logger
        self.warning_memory_mb = warning_memory_mb
        self.process = psutil.Process(os.getpid())

        self.current_operation = None
        self.progress_percent = 0
        self.operation_start_time = None

    def get_resource_usage(self):
        """
        Get a snapshot of this process's resource usage.

        Returns:
            dict: Memory, CPU and thread metrics
        """
        memory_info = self.process.memory_info()
        system_memory = psutil.virtual_memory()

        return {
            "timestamp": datetime.now().isoformat(),
            "memory": {
                "current_mb": memory_info.rss / (1024 * 1024),
                "system_percent_used": system_memory.percent,
            },
            "cpu": {
                # Non-blocking: measured since the previous call
                "process_percent": self.process.cpu_percent(interval=None),
                "cores": psutil.cpu_count(),
            },
            "threads": threading.active_count(),
            "process_id": self.process.pid,
        }

    def start(self, operation_name=None):
        """
        Begin tracking an operation.

        Args:
            operation_name (str, optional): Name of the operation being monitored
        """
        self.current_operation = operation_name
        self.progress_percent = 0
        self.operation_start_time = time.time()

        self.logger.info(f"Operation started: {operation_name}", extra={
            "metrics": {
                "operation": operation_name,
                "system_resources": self.get_resource_usage(),
            }
        })

    def stop(self):
        """
        Stop tracking the current operation and log its duration.

        Returns:
            float or None: Duration of the operation in seconds
        """
        if self.operation_start_time is None:
            return None

        duration = time.time() - self.operation_start_time
        self.logger.info(f"Operation finished: {self.current_operation}", extra={
            "metrics": {
                "operation": self.current_operation,
                "duration": duration,
                "system_resources": self.get_resource_usage(),
            }
        })

        self.current_operation = None
        self.progress_percent = 0
        self.operation_start_time = None
        return duration

    def log_progress(self, message, progress_percent=None, operation=None, extra_metrics=None):
        """
        Log progress of an ongoing operation with current resource metrics.

        Args:
            message (str): Progress message to log
            progress_percent (float, optional): Percentage of operation completed (0-100)
            operation (str, optional): Operation name (updates current_operation if provided)
            extra_metrics (dict, optional): Additional metrics to include in the log
        """
        if operation:
            self.current_operation = operation

        if progress_percent is not None:
            self.progress_percent = progress_percent

        resources = self.get_resource_usage()
        metrics = {"system_resources": resources}
        if extra_metrics:
            metrics.update(extra_metrics)

        if self.progress_percent > 0:
            metrics["progress_percent"] = self.progress_percent

        if self.operation_start_time:
            elapsed = time.time() - self.operation_start_time
            metrics["elapsed_time"] = elapsed

            if self.progress_percent > 0:
                estimated_total = elapsed / (self.progress_percent / 100)
                metrics["estimated_remaining_time"] = estimated_total - elapsed

        if self.warning_memory_mb and resources["memory"]["current_mb"] > self.warning_memory_mb:
            self.logger.warning(message, extra={"metrics": metrics})
        else:
            self.logger.info(message, extra={"metrics": metrics})

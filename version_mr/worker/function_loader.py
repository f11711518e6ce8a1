"""
Dynamic Function Loader for MapReduce Job Functions
Loads map, reduce, combiner and finalize functions from a job module,
a job file, or plain callables
"""

import os
import re
import sys
import types
import importlib
import importlib.util


def job_module_name(path: str) -> str:
    """Module name for a job file, unique per absolute path"""
    return "user_job_" + re.sub(r"\W|_", lambda m: f"_{ord(m.group()):x}_", os.path.abspath(path))


class FunctionLoader:
    """Resolves the job functions used by the map and reduce executors"""

    def __init__(self, job: str = None):
        """
        Initialize the function loader

        Args:
            job: Dotted module name (e.g. 'version_mr.jobs.version_range')
                or path to a Python file defining the job functions
        """
        self.job = job
        self.module = None

    @classmethod
    def from_callables(cls, map_function, reduce_function, combiner_function=None,
                       finalize_function=None) -> 'FunctionLoader':
        """Build a loader around functions that are already in hand."""
        loader = cls()
        namespace = types.SimpleNamespace(map_function=map_function, reduce_function=reduce_function)
        if combiner_function is not None:
            namespace.combiner_function = combiner_function
        if finalize_function is not None:
            namespace.finalize_function = finalize_function
        loader.module = namespace
        return loader

    def load_module(self):
        """
        Load the job module

        Returns:
            The loaded module object

        Raises:
            FileNotFoundError: If a job file path doesn't exist
            ValueError: If no job was given
        """
        if not self.job:
            raise ValueError("No job module or file given")

        if self.job.endswith('.py') or os.sep in self.job:
            if not os.path.exists(self.job):
                raise FileNotFoundError(f"Job file not found: {self.job}")

            module_name = job_module_name(self.job)
            spec = importlib.util.spec_from_file_location(module_name, self.job)
            if spec is None or spec.loader is None:
                raise RuntimeError(f"Failed to load job file: {self.job}")
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(self.job)

        self.module = module
        return module

    def _ensure_loaded(self):
        if not self.module:
            self.load_module()

    def get_map_function(self):
        """
        Get map function from loaded module

        Raises:
            AttributeError: If module doesn't define 'map_function'
        """
        self._ensure_loaded()
        if not callable(getattr(self.module, 'map_function', None)):
            raise AttributeError("Job must define 'map_function'")
        return self.module.map_function

    def get_reduce_function(self):
        """
        Get reduce function from loaded module

        Raises:
            AttributeError: If module doesn't define 'reduce_function'
        """
        self._ensure_loaded()
        if not callable(getattr(self.module, 'reduce_function', None)):
            raise AttributeError("Job must define 'reduce_function'")
        return self.module.reduce_function

    def get_combiner_function(self):
        """
        Get combiner function from loaded module

        Returns:
            The combiner_function callable, or reduce_function as default, or None
        """
        self._ensure_loaded()

        if hasattr(self.module, 'combiner_function'):
            return self.module.combiner_function
        # Default combiner is reduce function
        elif hasattr(self.module, 'reduce_function'):
            return self.module.reduce_function
        return None

    def get_finalize_function(self):
        """Get finalize function from loaded module, or None if it has none"""
        self._ensure_loaded()
        return getattr(self.module, 'finalize_function', None)

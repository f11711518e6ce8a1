"""
Ready-made job modules. Each defines map_function and reduce_function,
and optionally combiner_function and finalize_function.
"""

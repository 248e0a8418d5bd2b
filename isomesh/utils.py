import numpy as np


class InvalidInputError(ValueError):
    pass


class EmptySurfaceError(RuntimeError):
    pass


def mc_assert(expr: bool, log_str: str, internal: bool = False):
    if not expr:
        if internal:
            raise AssertionError(">>>> [MC]: " + log_str)
        raise InvalidInputError(">>>> [MC]: " + log_str)


def mc_log(log_str: str):
    print(">> [MC]: {}".format(log_str))


## @param values sequence of three numbers
#  @detail Returns a float32 copy, checking the arity
def as_vec3(values, name: str) -> np.ndarray:
    vec = np.array(values, dtype=np.float32).reshape(-1)
    mc_assert(vec.shape[0] == 3, "{} needs exactly three components, got {}.".format(name, vec.shape[0]))
    return vec

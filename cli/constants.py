# Source files carrying this extension are translated; anything else on the
# command line is left alone.
CUDA_SOURCE_EXTENSION = ".cu"

# `foo.cu` is copied to `foo.hip.cu` before analysis. The copy is what gets
# parsed and rewritten, and it is renamed back over `foo.cu` at the end.
SCRATCH_MARKER_EXTENSION = ".hip.cu"

COMPILE_COMMANDS_FILENAME = "compile_commands.json"

# Environment variable consulted when `--libclang` is not given.
LIBCLANG_ENV_VAR = "CUHIPIFY_LIBCLANG"

# Replacement text for the kernel launch rewrite.
HIP_LAUNCH_KERNEL = "hipLaunchKernel"
HIP_KERNEL_NAME_WRAPPER = "HIP_KERNEL_NAME"
HIP_LAUNCH_PARM_DECL = "hipLaunchParm lp"
DIM3_TYPE_NAME = "dim3"

# Config slots of `<<<grid, block, sharedMem, stream>>>` when clang does not
# expose the configuration call's declaration.
DEFAULT_LAUNCH_CONFIG_TYPES = ("dim3", "dim3", "size_t", "cudaStream_t")

# String literal contents.
SOURCE_STRING_MARKER = "cuda"
TARGET_STRING_MARKER = "hip"

# clang names the members of `threadIdx` and friends `__fetch_builtin_x` etc.
BUILTIN_ACCESSOR_PREFIX = "__fetch_builtin_"
BUILTIN_RECORD_PREFIX = "__cuda_builtin_"


import re
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

# Coarse filter the front end applies before reporting a declaration-shaped
# match; the rules still do the exact lookup.
SOURCE_API_NAME_RE = re.compile(r"cuda")

# Entries are kept in the order (and with the repetitions) of the historical
# table. Later duplicates overwrite earlier ones.
CUDA_TO_HIP_ENTRIES: list[tuple[str, str]] = [
    # defines
    ("__CUDACC__", "__HIPCC__"),
    # includes
    ("cuda_runtime.h", "hip_runtime.h"),
    ("cuda_runtime_api.h", "hip_runtime_api.h"),
    # Error codes and return types
    ("cudaError_t", "hipError_t"),
    ("cudaError", "hipError"),
    ("cudaSuccess", "hipSuccess"),
    ("cudaErrorUnknown", "hipErrorUnknown"),
    ("cudaErrorMemoryAllocation", "hipErrorMemoryAllocation"),
    ("cudaErrorMemoryFree", "hipErrorMemoryFree"),
    ("cudaErrorUnknownSymbol", "hipErrorUnknownSymbol"),
    ("cudaErrorOutOfResources", "hipErrorOutOfResources"),
    ("cudaErrorInvalidValue", "hipErrorInvalidValue"),
    ("cudaErrorInvalidResourceHandle", "hipErrorInvalidResourceHandle"),
    ("cudaErrorInvalidDevice", "hipErrorInvalidDevice"),
    ("cudaErrorNoDevice", "hipErrorNoDevice"),
    ("cudaErrorNotReady", "hipErrorNotReady"),
    ("cudaErrorUnknown", "hipErrorUnknown"),
    # error APIs
    ("cudaGetLastError", "hipGetLastError"),
    ("cudaPeekAtLastError", "hipPeekAtLastError"),
    ("cudaGetErrorName", "hipGetErrorName"),
    ("cudaGetErrorString", "hipGetErrorString"),
    # Memcpy
    ("cudaMemcpy", "hipMemcpy"),
    ("cudaMemcpyHostToHost", "hipMemcpyHostToHost"),
    ("cudaMemcpyHostToDevice", "hipMemcpyHostToDevice"),
    ("cudaMemcpyDeviceToHost", "hipMemcpyDeviceToHost"),
    ("cudaMemcpyDeviceToDevice", "hipMemcpyDeviceToDevice"),
    ("cudaMemcpyDefault", "hipMemcpyDefault"),
    ("cudaMemcpyToSymbol", "hipMemcpyToSymbol"),
    ("cudaMemset", "hipMemset"),
    ("cudaMemsetAsync", "hipMemsetAsync"),
    ("cudaMemcpyAsync", "hipMemcpyAsync"),
    ("cudaMemGetInfo", "hipMemGetInfo"),
    ("cudaMemcpyKind", "hipMemcpyKind"),
    # Memory management
    ("cudaMalloc", "hipMalloc"),
    ("cudaMallocHost", "hipMallocHost"),
    ("cudaFree", "hipFree"),
    ("cudaFreeHost", "hipFreeHost"),
    # Coordinate indexing and dimensions
    ("threadIdx.x", "hipThreadIdx_x"),
    ("threadIdx.y", "hipThreadIdx_y"),
    ("threadIdx.z", "hipThreadIdx_z"),
    ("blockIdx.x", "hipBlockIdx_x"),
    ("blockIdx.y", "hipBlockIdx_y"),
    ("blockIdx.z", "hipBlockIdx_z"),
    ("blockDim.x", "hipBlockDim_x"),
    ("blockDim.y", "hipBlockDim_y"),
    ("blockDim.z", "hipBlockDim_z"),
    ("gridDim.x", "hipGridDim_x"),
    ("gridDim.y", "hipGridDim_y"),
    ("gridDim.z", "hipGridDim_z"),
    ("blockIdx.x", "hipBlockIdx_x"),
    ("blockIdx.y", "hipBlockIdx_y"),
    ("blockIdx.z", "hipBlockIdx_z"),
    ("blockDim.x", "hipBlockDim_x"),
    ("blockDim.y", "hipBlockDim_y"),
    ("blockDim.z", "hipBlockDim_z"),
    ("gridDim.x", "hipGridDim_x"),
    ("gridDim.y", "hipGridDim_y"),
    ("gridDim.z", "hipGridDim_z"),
    ("warpSize", "hipWarpSize"),
    # Events
    ("cudaEvent_t", "hipEvent_t"),
    ("cudaEventCreate", "hipEventCreate"),
    ("cudaEventCreateWithFlags", "hipEventCreateWithFlags"),
    ("cudaEventDestroy", "hipEventDestroy"),
    ("cudaEventRecord", "hipEventRecord"),
    ("cudaEventElapsedTime", "hipEventElapsedTime"),
    ("cudaEventSynchronize", "hipEventSynchronize"),
    # Streams
    ("cudaStream_t", "hipStream_t"),
    ("cudaStreamCreate", "hipStreamCreate"),
    ("cudaStreamCreateWithFlags", "hipStreamCreateWithFlags"),
    ("cudaStreamDestroy", "hipStreamDestroy"),
    # Historical spelling, kept as-is for compatibility.
    ("cudaStreamWaitEvent", "hipStreamWaitEven"),
    ("cudaStreamSynchronize", "hipStreamSynchronize"),
    ("cudaStreamDefault", "hipStreamDefault"),
    ("cudaStreamNonBlocking", "hipStreamNonBlocking"),
    # Other synchronization; the deprecated cudaThread* calls map onto hipDevice*.
    ("cudaDeviceSynchronize", "hipDeviceSynchronize"),
    ("cudaThreadSynchronize", "hipDeviceSynchronize"),
    ("cudaDeviceReset", "hipDeviceReset"),
    ("cudaThreadExit", "hipDeviceReset"),
    ("cudaSetDevice", "hipSetDevice"),
    ("cudaGetDevice", "hipGetDevice"),
    # Device
    ("cudaDeviceProp", "hipDeviceProp_t"),
    ("cudaGetDeviceProperties", "hipDeviceGetProperties"),
    # Cache config
    ("cudaDeviceSetCacheConfig", "hipDeviceSetCacheConfig"),
    ("cudaThreadSetCacheConfig", "hipDeviceSetCacheConfig"),
    ("cudaDeviceGetCacheConfig", "hipDeviceGetCacheConfig"),
    ("cudaThreadGetCacheConfig", "hipDeviceGetCacheConfig"),
    ("cudaFuncCache", "hipFuncCache"),
    ("cudaFuncCachePreferNone", "hipFuncCachePreferNone"),
    ("cudaFuncCachePreferShared", "hipFuncCachePreferShared"),
    ("cudaFuncCachePreferL1", "hipFuncCachePreferL1"),
    ("cudaFuncCachePreferEqual", "hipFuncCachePreferEqual"),
    ("cudaFuncSetCacheConfig", "hipFuncSetCacheConfig"),
    ("cudaDriverGetVersion", "hipDriverGetVersion"),
    # Peer2Peer
    ("cudaDeviceCanAccessPeer", "hipDeviceCanAccessPeer"),
    ("cudaDeviceDisablePeerAccess", "hipDeviceDisablePeerAccess"),
    ("cudaDeviceEnablePeerAccess", "hipDeviceEnablePeerAccess"),
    ("cudaMemcpyPeerAsync", "hipMemcpyPeerAsync"),
    ("cudaMemcpyPeer", "hipMemcpyPeer"),
    # Shared mem
    ("cudaDeviceSetSharedMemConfig", "hipDeviceSetSharedMemConfig"),
    ("cudaThreadSetSharedMemConfig", "hipDeviceSetSharedMemConfig"),
    ("cudaDeviceGetSharedMemConfig", "hipDeviceGetSharedMemConfig"),
    ("cudaThreadGetSharedMemConfig", "hipDeviceGetSharedMemConfig"),
    ("cudaSharedMemConfig", "hipSharedMemConfig"),
    ("cudaSharedMemBankSizeDefault", "hipSharedMemBankSizeDefault"),
    ("cudaSharedMemBankSizeFourByte", "hipSharedMemBankSizeFourByte"),
    ("cudaSharedMemBankSizeEightByte", "hipSharedMemBankSizeEightByte"),
    ("cudaGetDeviceCount", "hipGetDeviceCount"),
    # Profiler
    ("cudaProfilerStart", "hipProfilerStart"),
    ("cudaProfilerStop", "hipProfilerStop"),
    # Textures
    ("cudaChannelFormatDesc", "hipChannelFormatDesc"),
    ("cudaFilterModePoint", "hipFilterModePoint"),
    ("cudaReadModeElementType", "hipReadModeElementType"),
    ("cudaCreateChannelDesc", "hipCreateChannelDesc"),
    ("cudaBindTexture", "hipBindTexture"),
    ("cudaUnbindTexture", "hipUnbindTexture"),
]


class SymbolTable:
    """Read-only mapping from source-API spellings to target-API spellings.

    Built once at startup and shared by every rule and pass."""

    def __init__(self, entries: Iterable[tuple[str, str]]) -> None:
        renames: dict[str, str] = {}
        for source_name, target_name in entries:
            renames[source_name] = target_name
        self._renames: Mapping[str, str] = MappingProxyType(renames)

    def lookup(self, name: str) -> str | None:
        return self._renames.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._renames

    def __len__(self) -> int:
        return len(self._renames)

    def __iter__(self) -> Iterator[str]:
        return iter(self._renames)

    def items(self) -> Iterable[tuple[str, str]]:
        return self._renames.items()


def cuda_to_hip_table() -> SymbolTable:
    return SymbolTable(CUDA_TO_HIP_ENTRIES)

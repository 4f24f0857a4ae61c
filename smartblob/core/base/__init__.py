from smartblob.core.base.smartblob_base import SmartBlob, SmartBlobABC, SmartBlobABCMeta, SmartBlobMeta

__all__ = ["SmartBlob", "SmartBlobABC", "SmartBlobABCMeta", "SmartBlobMeta"]

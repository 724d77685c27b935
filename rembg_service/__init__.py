"""
U2-Net background removal microservice package.

Exposes reusable primitives for provisioning the ONNX models, encoding
images into tensors, running inference, compositing the predicted mask
as alpha, and serving the FastAPI application.
"""

from sqlalchemy import Boolean, Column, Integer, Numeric, String, CheckConstraint
from shared.config.database import Base

AVAILABILITY_IN_STOCK = "IN_STOCK"
AVAILABILITY_OUT_OF_STOCK = "OUT_OF_STOCK"
AVAILABILITY_PREORDER = "PREORDER"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    sku = Column(String(64), unique=True, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    sale_price = Column(Numeric(10, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    availability = Column(String(20), nullable=False, default=AVAILABILITY_IN_STOCK)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def effective_price(self):
        return self.sale_price if self.sale_price is not None else self.price
